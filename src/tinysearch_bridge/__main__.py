import sys

from tinysearch_bridge.cli import main


sys.exit(main())
