"""
CLI entry point, when used as a module: `python -m eventrelay`.

Useful for debugging in the IDEs (use the start-mode "Module", module "eventrelay").
"""
from eventrelay import cli

if __name__ == '__main__':
    cli.main()
