from loopauth.app import main

main()
