import sys

from wisp_engine.cli import main

sys.exit(main())
