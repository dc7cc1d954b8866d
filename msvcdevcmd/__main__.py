import sys

from .msvcdevcmd import cli

if __name__ == "__main__":
    sys.exit(cli())
