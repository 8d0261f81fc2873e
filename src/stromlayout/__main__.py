from stromlayout.main import main

raise SystemExit(main())
