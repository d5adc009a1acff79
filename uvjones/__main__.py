"""
UVJONES module entry point.

Allows running as: python -m uvjones run config.yaml
"""

from uvjones.cli.main import main

if __name__ == "__main__":
    main()
