import sys

from capi_dispatch.cli import main

sys.exit(main())
