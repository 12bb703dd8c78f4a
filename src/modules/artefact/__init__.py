"""
Artefact module: assembly from ten distinct tier-5 items.
"""

from .service import ArtefactService

__all__ = ["ArtefactService"]
