"""
Database CLI Commands

Database operations: init
"""
import asyncio


class DbCommand:
    """Database CLI command handler."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def execute(self, args) -> int:
        """Execute database command."""
        if args.db_action == "init":
            return self._init(args)
        else:
            print("Error: Unknown database action")
            return 1

    def _init(self, args) -> int:
        """Create every table that does not exist yet."""
        print("=== Database Init ===")

        if self.dry_run:
            print("[DRY RUN] Would create missing tables")
            return 0

        try:
            asyncio.run(self._async_init())
            return 0
        except Exception as e:
            print(f"Init failed: {e}")
            return 1

    async def _async_init(self) -> None:
        from ladder import database

        try:
            await database.init_db()
        finally:
            await database.close_db()
        print("✓ Tables created")
