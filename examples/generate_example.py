"""Generate an example wiki archive to see what the format looks like."""

import sys
sys.path.insert(0, str(__import__("pathlib").Path(__file__).parent.parent))

from wsif.document import WSIFDocument, WSIFPage

doc = WSIFDocument(author="example")

doc.add_page(WSIFPage.text("Main Page", """Welcome to the example wiki!

See [[Release Notes]] for what changed, or open [[logo.gif]].
Paths like C:\\wiki\\pages survive the ECMA escaping unchanged.""", last_modified=1700000000))

doc.add_page(WSIFPage.text("Release Notes", """* Übersicht der Änderungen
* Nouvelle fonctionnalité: pages chiffrées
* 新しいページ形式 ☕""", last_modified=1700003600))

# 1x1 transparent GIF
doc.add_page(WSIFPage.image(
    "logo.gif", "image/gif",
    bytes.fromhex("47494638396101000100800000000000ffffff21f90401000000002c00000000010001000002024401003b"),
))

doc.add_page(WSIFPage.file("notes.txt", b"plain attachment\n"))

doc.add_page(WSIFPage.encrypted("Diary", bytes(range(16))))

# Write the example as a single file and as one file per page
base = __import__("pathlib").Path(__file__).parent
written = doc.write(str(base / "single"))
print(f"Generated {base / 'single' / 'index.wsif'} ({written} pages)")
written = doc.write(str(base / "multi"), single_file=False, inline_blobs=False)
print(f"Generated {base / 'multi' / 'index.wsif'} ({written} pages, blobs external)")

# Also print the raw archive so you can see the format
print()
print("=" * 60)
print("RAW .wsif FILE CONTENTS:")
print("=" * 60)
print()
print(doc.to_bytes(boundary="EXAMPLE123").decode("utf-8"))
