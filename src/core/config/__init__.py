"""
Configuration management subsystem.

Purpose
-------
Provides static (environment-based) and dynamic (YAML + database-backed)
configuration for the economy engine.

Static vs Dynamic Configuration
--------------------------------
**Static (Config):**
- Loaded from environment variables at startup
- Includes: database URL and pool sizes, environment, log level, paths
- Changes require a restart

**Dynamic (ConfigManager):**
- Loaded from `config/*.yaml` defaults + `game_config` overrides
- Includes: shop price, pity interval, crafting success rate, marketplace fees
- Hot-reload support with background refresh

Usage Examples
--------------
```python
from src.core.config import Config, ConfigManager

db_url = Config.DATABASE_URL

await ConfigManager.initialize()
price = ConfigManager.get("economy.shop.base_roll_price", 100)
await ConfigManager.set("economy.marketplace.fee_bps", 150, modified_by="ops")
```
"""

from src.core.config.config import Config, Environment
from src.core.config.manager import ConfigManager

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
]
