"""
Economy domain modules.

Each subpackage owns one slice of the economy and exposes a service class:

- catalog: reference catalog snapshot and seeder
- inventory: item and recipe holdings (credit/debit primitive)
- ledger: currency balance changes and the append-only ledger
- user: registration and profiles
- shop: base-roll gacha with recipe pity timer
- crafting: recipe crafting with probabilistic failure
- artefact: artefact assembly from distinct tier-5 items
- marketplace: buy-now listings with seller escrow
- admin: operator tools (balance adjustments, bonus gold, audits)
- shared: base classes, exceptions, constants and formulas
"""
