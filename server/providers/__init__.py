"""Provider plugin runtime.

A provider is a piece of source code representing one external music platform.
It is fetched once, cached on disk, and executed in a restricted namespace; the
functions it defines become its capabilities.
"""
