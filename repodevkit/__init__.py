# repodevkit/__init__.py
"""
repodevkit - maintenance devkit for binary package repositories built from
ported Portage trees.

Subcommands exposed by the CLI:
 - clean: reconcile the artifact store against recipe trees
 - pkgs:  list available / missing packages, optionally in build order
"""

__version__ = "0.6.0"
