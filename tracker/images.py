import logging
import os
import re

from PIL import Image, ImageOps, UnidentifiedImageError

from errors import ValidationError

log = logging.getLogger(__name__)

DEFAULT_IMAGES = [
    "https://images.unsplash.com/photo-1466781783364-36c955e42a7f?w=400&h=400&fit=crop",
    "https://images.unsplash.com/photo-1593691509543-c55fb32e5cee?w=400&h=400&fit=crop",
    "https://images.unsplash.com/photo-1416879595882-3373a0480b5b?w=400&h=400&fit=crop",
    "https://images.unsplash.com/photo-1520412099551-62b6bafeb5bb?w=400&h=400&fit=crop",
]

_LOCAL_NAME_RE = re.compile(r"^[\w\-]+\.jpg$")


def is_remote_image(ref):
    return bool(ref) and ref.startswith(("http://", "https://"))


def owned_image_name(plant_id):
    return f"{plant_id}.jpg"


def owns_image(plant_id, ref):
    """True if ref is the locally stored picture belonging to plant_id."""
    return bool(ref) and ref == owned_image_name(plant_id)


def image_path(config, ref):
    """Resolve a locally owned image reference to a path, or None if it isn't one."""
    if not ref or is_remote_image(ref) or not _LOCAL_NAME_RE.match(ref):
        return None
    base_dir = os.path.realpath(config["storage"]["image_dir"])
    path = os.path.realpath(os.path.join(base_dir, ref))
    if not path.startswith(base_dir + os.sep):
        return None
    return path


def store_image(config, plant_id, source):
    """Copy a picture into the app image directory, named by plant id.

    Source is a path or file object; remote URLs are returned unchanged.
    Local pictures are re-encoded as JPEG with EXIF orientation applied
    and the long edge capped at storage.image_max_px.

    Returns:
        The image reference to store on the plant.
    """
    if isinstance(source, str) and is_remote_image(source):
        return source

    image_dir = config["storage"]["image_dir"]
    os.makedirs(image_dir, exist_ok=True)
    filename = owned_image_name(plant_id)
    dest = os.path.join(image_dir, filename)
    max_px = config["storage"].get("image_max_px", 1024)

    try:
        with Image.open(source) as img:
            img = ImageOps.exif_transpose(img)
            img = img.convert("RGB")
            img.thumbnail((max_px, max_px))
            img.save(dest, "JPEG", quality=85)
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError(f"Could not read image: {e}") from e

    log.info("Stored image for plant %s: %s", plant_id, dest)
    return filename


def delete_image(config, ref):
    """Delete a locally owned image file. Remote references are left alone."""
    path = image_path(config, ref)
    if not path or not os.path.isfile(path):
        return False
    os.remove(path)
    log.info("Deleted image %s", path)
    return True
