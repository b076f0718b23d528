"""Main entry point when executing slotgate as a package.

This allows running the package using python -m slotgate.
"""

from slotgate.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
