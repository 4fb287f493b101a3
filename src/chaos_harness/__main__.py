import sys

from chaos_harness.cli import main

sys.exit(main())
