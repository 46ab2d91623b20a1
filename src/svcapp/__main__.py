from svcapp.cli import main

raise SystemExit(main())
