import sys

from birthday_mailer.job import main

sys.exit(main())
