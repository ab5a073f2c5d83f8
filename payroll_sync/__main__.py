import sys

from payroll_sync.server import main

sys.exit(main())
