"""Built-in CLI sub-commands for lixcache.

* :mod:`~lixcache.commands.cache` -- ``get``, ``set``, ``delete``,
  ``exists``, ``incr``, ``decr``, ``scan``, ``stats``, ``clear`` and
  ``health``, registered directly on the root app.
* :mod:`~lixcache.commands.config` -- the ``config`` group for viewing
  and modifying global settings.
"""
