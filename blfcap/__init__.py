# MIT License
# blfcap - Vector BLF bus logs -> PCAPNG captures (CAN, CAN-FD, Ethernet, FlexRay)

__version__ = "0.1.0"
