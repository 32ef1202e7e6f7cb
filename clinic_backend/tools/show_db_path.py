from __future__ import annotations

from clinic_backend.db import get_engine


def main() -> None:
    engine = get_engine()
    print("ENGINE URL:", engine.url)
    print("DB FILE   :", engine.url.database)


if __name__ == "__main__":
    main()
