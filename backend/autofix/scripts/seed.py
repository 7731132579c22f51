import argparse
import asyncio

from autofix.core.config import settings
from autofix.db.session import SessionLocal, init_db
from autofix.services.projects import ProjectResolver, seed_projects_from_config


async def seed(config_path: str) -> None:
    await init_db()
    created = await seed_projects_from_config(SessionLocal, config_path)
    print(f"Added projects: {created}")
    slugs = await ProjectResolver(SessionLocal).list_slugs()
    print("Mapped projects: " + (", ".join(slugs) if slugs else "none"))


def main() -> None:
    parser = argparse.ArgumentParser(description="Load project mappings from a JSON config file")
    parser.add_argument("config", nargs="?", default=settings.projects_config_path)
    args = parser.parse_args()
    asyncio.run(seed(args.config))


if __name__ == "__main__":
    main()
