"""Realm Forge launcher. Same as the `realm-forge` console script."""

import sys

from realm_forge.cli import main

if __name__ == "__main__":
    sys.exit(main())
