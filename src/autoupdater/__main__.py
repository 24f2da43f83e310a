"""Allow ``python -m autoupdater``."""

from autoupdater.cli import main

raise SystemExit(main())
