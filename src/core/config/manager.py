"""
ConfigManager: dynamic, cache-backed economy configuration access.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable economy values
  (shop price, pity interval, crafting success rate, marketplace fees).
- Back configuration with YAML defaults plus database overrides.
- Maintain a warm in-memory cache with periodic background refresh.

Responsibilities
----------------
- Load and deep-merge balance defaults from the `config/` directory.
- Overlay database-backed overrides (`GameConfig` rows) on top of YAML defaults.
- Serve configuration reads from the in-memory cache.
- Apply transactional updates to configuration values with pessimistic locking.
- Publish `config.changed` events on successful writes.

Transaction Discipline
----------------------
- All writes use `DatabaseService.get_transaction()`; no manual commits.
- Writes lock the relevant `GameConfig` row via `SELECT ... FOR UPDATE`.

Key Design Decisions
--------------------
- YAML is the single source for **defaults**; the database stores **overrides**.
- Top-level config keys map to rows in `GameConfig`; nested keys are stored
  as nested dictionaries in `config_value`.
- Cache refresh TTL precedence: hardcoded 300s < YAML < database
  (`core.config_cache_ttl_seconds`).
- Reads before `initialize()` lazily load YAML defaults so services and tests
  can run without a database-backed config layer.
"""

from __future__ import annotations

import asyncio
import copy
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

import yaml
from sqlalchemy import select

from src.core.config.config import Config
from src.core.exceptions import ConfigInitializationError, ConfigWriteError
from src.core.logging.logger import get_logger
from src.database.models.core.game_config import GameConfig

logger = get_logger(__name__)


# ============================================================================
# ConfigManager
# ============================================================================


class ConfigManager:
    """
    Dynamic economy configuration with database backing and caching.

    Features
    --------
    - Hierarchical config access with dot notation (e.g. `"economy.shop.base_roll_price"`).
    - In-memory caching with periodic background refresh.
    - Hot-reload support for live balance changes.
    """

    _cache: Dict[str, Any] = {}
    _defaults: Dict[str, Any] = {}

    _initialized: bool = False
    _defaults_loaded: bool = False
    _refresh_task: Optional[asyncio.Task[None]] = None

    _init_lock: asyncio.Lock = asyncio.Lock()
    _cache_lock: asyncio.Lock = asyncio.Lock()

    _cache_ttl_seconds: int = 300
    _refresh_count: int = 0
    _errors: int = 0

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: Mapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    @classmethod
    def _load_yaml_configs(cls, config_dir: Optional[Path] = None) -> None:
        """
        Load all YAML config files from `config/` into `_defaults`.

        Files are merged in sorted order so composition is deterministic.
        A missing directory leaves the defaults empty; services then fall back
        to the constants they pass as `default=`.
        """
        config_dir = config_dir or Config.CONFIG_DIR
        cls._defaults = {}
        cls._defaults_loaded = True

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            cls._cache = {}
            return

        yaml_files = sorted(
            list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml"))
        )
        loaded_count = 0

        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                cls._errors += 1
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(cls._defaults, data)
                loaded_count += 1
                logger.debug(
                    "Loaded YAML config",
                    extra={"file": str(yaml_file.relative_to(config_dir))},
                )
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "root_type": type(data).__name__,
                    },
                )

        cls._cache = copy.deepcopy(cls._defaults)

        logger.info(
            "YAML configs loaded",
            extra={
                "yaml_file_count": loaded_count,
                "total_cache_keys": len(cls._cache),
            },
        )

        cls._refresh_cache_ttl_from_cache_locked()

    @classmethod
    def _refresh_cache_ttl_from_cache_locked(cls) -> None:
        """
        Update `_cache_ttl_seconds` from `core.config_cache_ttl_seconds`.

        Must be called with `_cache_lock` held or during single-task setup.
        """
        core_cfg = cls._cache.get("core")
        if not isinstance(core_cfg, Mapping):
            return

        raw = core_cfg.get("config_cache_ttl_seconds")
        if isinstance(raw, int) and raw > 0 and raw != cls._cache_ttl_seconds:
            old_ttl = cls._cache_ttl_seconds
            cls._cache_ttl_seconds = raw
            logger.info(
                "Config cache TTL updated from cache",
                extra={
                    "old_cache_ttl_seconds": old_ttl,
                    "new_cache_ttl_seconds": raw,
                },
            )

    @classmethod
    def _apply_overrides_locked(cls, configs: List[GameConfig]) -> None:
        for cfg in configs:
            default_value = cls._defaults.get(cfg.config_key)
            if isinstance(default_value, dict) and isinstance(cfg.config_value, dict):
                merged = copy.deepcopy(default_value)
                cls._deep_merge_dict(merged, cfg.config_value)
                cls._cache[cfg.config_key] = merged
            else:
                cls._cache[cfg.config_key] = copy.deepcopy(cfg.config_value)
        cls._refresh_cache_ttl_from_cache_locked()

    # =========================================================================
    # INITIALIZATION / REFRESH
    # =========================================================================

    @classmethod
    async def initialize(cls, start_refresh: bool = True) -> None:
        """
        Initialize ConfigManager from YAML and the database (idempotent).

        Steps
        -----
        - Load YAML defaults from the `config/` directory.
        - Overlay DB-backed overrides onto the in-memory cache.
        - Start the background refresh task if requested.

        Raises
        ------
        ConfigInitializationError
            If the override table cannot be read.
        """
        from src.core.database.service import DatabaseService

        if cls._initialized:
            return

        async with cls._init_lock:
            if cls._initialized:
                return

            init_start = time.perf_counter()
            cls._load_yaml_configs()

            try:
                async with DatabaseService.get_session() as session:
                    result = await session.execute(select(GameConfig))
                    configs: List[GameConfig] = list(result.scalars().all())
            except Exception as exc:
                cls._errors += 1
                cls._initialized = True  # degraded: YAML defaults only
                logger.error(
                    "ConfigManager initialization failed; falling back to defaults",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "cache_keys_after_fallback": len(cls._cache),
                    },
                    exc_info=True,
                )
                raise ConfigInitializationError(
                    "Failed to initialize ConfigManager"
                ) from exc

            async with cls._cache_lock:
                cls._apply_overrides_locked(configs)

            cls._initialized = True

            if start_refresh and (cls._refresh_task is None or cls._refresh_task.done()):
                cls._refresh_task = asyncio.create_task(cls._background_refresh())
                logger.info(
                    "ConfigManager background refresh started",
                    extra={"cache_ttl_seconds": cls._cache_ttl_seconds},
                )

            elapsed_ms = (time.perf_counter() - init_start) * 1000
            logger.info(
                "ConfigManager initialization completed",
                extra={
                    "override_count": len(configs),
                    "latency_ms": round(elapsed_ms, 2),
                },
            )

    @classmethod
    async def _background_refresh(cls) -> None:
        """
        Periodically refresh configuration overrides from the database.

        Runs until cancelled via `shutdown()`. Refresh errors are logged and
        counted; the loop keeps running.
        """
        from src.core.database.service import DatabaseService

        try:
            while True:
                await asyncio.sleep(cls._cache_ttl_seconds)
                try:
                    async with DatabaseService.get_session() as session:
                        result = await session.execute(select(GameConfig))
                        configs: List[GameConfig] = list(result.scalars().all())

                    async with cls._cache_lock:
                        cls._apply_overrides_locked(configs)
                        cls._refresh_count += 1

                    logger.debug(
                        "ConfigManager cache refreshed from database",
                        extra={
                            "config_count": len(configs),
                            "refresh_count": cls._refresh_count,
                        },
                    )
                except Exception as exc:
                    cls._errors += 1
                    logger.error(
                        "ConfigManager background refresh error",
                        extra={
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                        exc_info=True,
                    )
        except asyncio.CancelledError:
            logger.info("ConfigManager background refresh loop terminated")
            raise

    @classmethod
    async def shutdown(cls) -> None:
        """Stop the background refresh task. Safe to call multiple times."""
        task = cls._refresh_task
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        finally:
            cls._refresh_task = None
            logger.info("ConfigManager shutdown complete")

    # =========================================================================
    # READ API
    # =========================================================================

    @staticmethod
    def _traverse(root: Mapping[str, Any], key: str) -> Any:
        value: Any = root
        for part in key.split("."):
            if not isinstance(value, Mapping):
                return None
            value = value.get(part)
            if value is None:
                return None
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Never touches the database. Reads before `initialize()` lazily load
        the YAML defaults.

        Examples
        --------
        >>> price = ConfigManager.get("economy.shop.base_roll_price", 100)
        >>> rate = ConfigManager.get("economy.crafting.success_rate", 0.90)
        """
        if not cls._defaults_loaded:
            cls._load_yaml_configs()

        value = cls._traverse(cls._cache, key)
        if value is None:
            value = cls._traverse(cls._defaults, key)
        return default if value is None else value

    # =========================================================================
    # WRITE API
    # =========================================================================

    @classmethod
    async def set(
        cls,
        key: str,
        value: Any,
        modified_by: str = "system",
        emit_event: bool = True,
    ) -> None:
        """
        Atomically update a configuration value in the database and cache.

        Parameters
        ----------
        key:
            Dot-notation configuration path (e.g. `"economy.marketplace.fee_bps"`).
        value:
            New value to persist.
        modified_by:
            Identifier for the actor making the change.
        emit_event:
            Whether to publish `config.changed` after commit.

        Raises
        ------
        ConfigWriteError
            If the write fails.
        """
        from src.core.database.service import DatabaseService

        start_time = time.perf_counter()
        parts = key.split(".")
        top_key = parts[0]
        previous_value: Any = None

        try:
            async with DatabaseService.get_transaction() as session:
                stmt = (
                    select(GameConfig)
                    .where(GameConfig.config_key == top_key)
                    .with_for_update()
                )
                result = await session.execute(stmt)
                cfg: Optional[GameConfig] = result.scalar_one_or_none()

                previous_value = cfg.config_value if cfg is not None else None

                if len(parts) > 1:
                    base: Dict[str, Any] = (
                        copy.deepcopy(previous_value)
                        if isinstance(previous_value, dict)
                        else {}
                    )
                    current: Dict[str, Any] = base
                    for segment in parts[1:-1]:
                        nested = current.get(segment)
                        if not isinstance(nested, dict):
                            nested = {}
                            current[segment] = nested
                        current = nested
                    current[parts[-1]] = value
                    final_value: Any = base
                else:
                    final_value = value

                if cfg is None:
                    session.add(
                        GameConfig(
                            config_key=top_key,
                            config_value=final_value,
                            modified_by=modified_by,
                        )
                    )
                else:
                    cfg.config_value = final_value
                    cfg.modified_by = modified_by
                    cfg.updated_at = datetime.now(timezone.utc)

        except Exception as exc:
            cls._errors += 1
            logger.error(
                "Config update failed",
                extra={
                    "config_key": key,
                    "modified_by": modified_by,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            raise ConfigWriteError(f"Failed to update config '{key}'") from exc

        if not cls._defaults_loaded:
            cls._load_yaml_configs()

        async with cls._cache_lock:
            cls._apply_overrides_locked(
                [GameConfig(config_key=top_key, config_value=final_value)]
            )

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Configuration updated",
            extra={
                "config_key": key,
                "top_level_key": top_key,
                "modified_by": modified_by,
                "latency_ms": round(elapsed_ms, 2),
            },
        )

        if emit_event:
            from src.core.event import event_bus

            await event_bus.publish(
                "config.changed",
                {
                    "config_key": key,
                    "previous_value": previous_value,
                    "new_value": final_value,
                    "modified_by": modified_by,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )

    # =========================================================================
    # CACHE CONTROL & HEALTH
    # =========================================================================

    @classmethod
    def clear_cache(cls) -> None:
        """
        Clear the in-memory cache and reset initialization status.

        Intended for testing and controlled maintenance operations.
        """
        cls._cache = {}
        cls._defaults = {}
        cls._defaults_loaded = False
        cls._initialized = False
        logger.info("ConfigManager cache cleared")

    @classmethod
    def health_snapshot(cls) -> Dict[str, Any]:
        refresh_running = cls._refresh_task is not None and not cls._refresh_task.done()
        return {
            "initialized": cls._initialized,
            "background_refresh_running": refresh_running,
            "cached_configs": len(cls._cache),
            "errors": cls._errors,
            "refresh_count": cls._refresh_count,
            "cache_ttl_seconds": cls._cache_ttl_seconds,
        }
