import sys

from n8n_migrator.cli import main

sys.exit(main())
