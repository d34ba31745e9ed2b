import sys

from routing_rules.cli import main

sys.exit(main())
