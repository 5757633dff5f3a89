from tesla_http_proxy.bootstrap import main

main()
