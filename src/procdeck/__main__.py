"""Entry point: python -m procdeck"""

from procdeck.main import main

if __name__ == "__main__":
    main()
