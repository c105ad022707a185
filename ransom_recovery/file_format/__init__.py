"""Post-decryption container repair"""

from .container_repair import ContainerRepair, RepairedOutput, RepairingWriter
