"""
Idata Module Entry Point
=========================

Allows running the Idata CLI via: python -m idata
"""

from idata.cli import main

if __name__ == "__main__":
    main()
