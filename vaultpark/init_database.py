"""Create the VaultPark tables and seed the built-in pricing tiers."""
from vaultpark.infrastructure.persistence.database import init_db

if __name__ == "__main__":
    init_db()
