"""Run the helm-operator command line tool with `python -m helm_operator`."""

from helm_operator.tool.helm_operator import main

if __name__ == "__main__":
    main()
