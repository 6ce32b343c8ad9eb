import sys

from tools.thinrouter.cli import main

sys.exit(main())
