import sys

from steamwatch.main import main

sys.exit(main())
