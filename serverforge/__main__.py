from serverforge.cli import main

main()
