from netstats.cli import main

main()
