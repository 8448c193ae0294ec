"""Allow running the engine with ``python -m dinarlive``."""
import sys

from dinarlive.app import main

sys.exit(main())
