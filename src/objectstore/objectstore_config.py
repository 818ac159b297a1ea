"""Default configuration variables for ObjectStore"""

############### Store Path ###############
# Default path of the store when the client is not given one
STORE_PATH = ".objectstore"
# Name of the configuration file written to the store root
CONFIG_FILE = "objectstore.yaml"

############### Directory Structure ###############
# Desired amount of directories when sharding an object id to form the permanent address
DIR_DEPTH = 1  # WARNING: DO NOT CHANGE, THE LOOSE OBJECT LAYOUT DEPENDS ON IT
# Width of directories created when sharding an object id to form the permanent address
DIR_WIDTH = 2  # WARNING: DO NOT CHANGE, THE LOOSE OBJECT LAYOUT DEPENDS ON IT
# Example:
# Below, an object is shown in a directory that is 1 level deep (DIR_DEPTH=1),
# with the directory name consisting of 2 characters (DIR_WIDTH=2).
#    .objectstore/objects
#    └── bd
#        └── 9dbf5aae1a3862dd1526723246b20206e5fc37

############### References ###############
DEFAULT_BRANCH = "master"

############### Objects ###############
# zlib compression level, -1 selects the zlib default
COMPRESSION_LEVEL = -1
# Largest body size accepted when decoding an object header
MAX_OBJECT_SIZE = 2**31
# Re-derive the id of every object read from disk
VERIFY_ON_READ = True
