# SPDX-FileCopyrightText: 2023-present E.W.Ayers <contact@edayers.com>
#
# SPDX-License-Identifier: MIT

from .digest import Digest, digest_file, get_digest_and_length
from .download import download
from .errors import *
from .manifest import Manifest, ManifestEntry
from .snapshots import delete_snapshot, list_snapshots, read_manifest
from .store import AbstractBlobStore, BlobInfo
from .upload import UploadStats, upload
from .walk import WalkEntry, walk
