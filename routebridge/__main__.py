from routebridge.cli.main import main

main()
