"""Allow running as `python -m hostprov`."""

from hostprov.cli.main import main


if __name__ == "__main__":
    main()
