from shortener.app import main

main()
