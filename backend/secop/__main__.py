from secop.cli import main

raise SystemExit(main())
