import sys

from static_host.cli import main

sys.exit(main())
