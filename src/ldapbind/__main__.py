"""Allow ``python -m ldapbind``."""

from ldapbind.interface.cli import main


if __name__ == "__main__":
    main()
