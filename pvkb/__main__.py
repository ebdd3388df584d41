from pvkb.app import main

raise SystemExit(main())
