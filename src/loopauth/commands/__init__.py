"""Built-in CLI sub-commands for loopauth.

* :mod:`~loopauth.commands.authorize` -- run one browser round trip and
  print the captured authorization response.
* :mod:`~loopauth.commands.probe` -- show which redirect URI template the
  chooser would hand out, and why.
* :mod:`~loopauth.commands.config` -- view and modify global settings.

Single commands export a plain callback registered on the root app;
``config`` exports a :class:`typer.Typer` sub-application.
"""
