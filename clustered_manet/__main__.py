import sys

from clustered_manet.experiment import main

sys.exit(main())
