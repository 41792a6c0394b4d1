from __future__ import annotations

from .cli_app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
