from torrentgate.app import main

main()
