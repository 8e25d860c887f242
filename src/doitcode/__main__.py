"""Allow ``python -m doitcode``."""

from doitcode.cli import main

main()
