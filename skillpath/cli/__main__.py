from skillpath.cli.main import main

main()
