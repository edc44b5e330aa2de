"""
ldapbind - certificate-based LDAP authentication for Bright-style clusters.

Runs the CLI from a source checkout without installing the package.
"""

import sys

from ldapbind.interface.cli import main


if __name__ == "__main__":
    sys.exit(main())
