"""RemoteSync - clipboard, file and attention sharing between two devices on a LAN"""

__version__ = "0.1.0"
