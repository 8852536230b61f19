from ws_monitor.app import main

main()
