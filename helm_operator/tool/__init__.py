"""Command line tool for helm-operator."""
