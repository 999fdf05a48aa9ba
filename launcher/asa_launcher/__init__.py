"""
asa_launcher package
--------------------
Launcher and supervisor for the ARK: Survival Ascended dedicated server.
Contains modules for settings, SteamCMD integration, firewall rules,
install bootstrap, launch argument construction, the restart loop and
the headless mod prefetch run.
"""

__version__ = "0.4.0"
