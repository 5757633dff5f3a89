"""Entry point for the HTTP-only vehicle command proxy."""

from tesla_http_proxy.bootstrap import main


if __name__ == "__main__":
    main()
