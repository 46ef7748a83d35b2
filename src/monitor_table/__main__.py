import sys

from monitor_table.cli import main

sys.exit(main())
