"""Built-in CLI sub-commands for loopauth.

* :mod:`~loopauth.commands.login` -- ``login`` and ``github``, which run
  the authorization flow.
* :mod:`~loopauth.commands.config` -- view and modify global settings.

Multi-command groups export a :class:`typer.Typer` sub-application; single
commands export a plain callback registered on the root app.
"""
