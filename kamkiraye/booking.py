"""WhatsApp booking links and image gallery helpers."""

from urllib.parse import quote

from .schemas import ApartmentDetail, BranchNode, RoomDetail

GENERAL_MESSAGE = "Hi! I want to know more about availability."

# Storage render endpoint parameters used for every gallery image
RENDER_QUERY = "width=800&resize=contain&quality=95"

# Characters encodeURIComponent leaves alone besides letters, digits and "-_."
URI_SAFE = "!'()*~"


def make_whatsapp_link(message: str, number: str) -> str:
    """Deep link that opens a WhatsApp chat with `message` prefilled."""
    digits = "".join(ch for ch in number if ch.isdigit())
    return f"https://wa.me/{digits}?text={quote(message, safe=URI_SAFE)}"


def apartment_message(apartment_name: str, branch_name: str | None) -> str:
    return f'Hello! I want to book the entire apartment "{apartment_name}" at {branch_name} branch.'


def room_message(
    room_name: str,
    branch_name: str | None,
    apartment_name: str | None = None,
) -> str:
    """Booking message for a room, naming its apartment when it has one."""
    if apartment_name:
        return f'Hello! I want to book the room "{room_name}" in "{apartment_name}" at {branch_name} branch.'
    return f'Hello! I want to book the room "{room_name}" at {branch_name} branch.'


def room_detail_message(
    room_name: str,
    branch_name: str | None,
    apartment_name: str | None = None,
) -> str:
    """Booking message used on a room's own page."""
    if apartment_name:
        return f'Hello! I want to book the room "{room_name}" at {apartment_name} at {branch_name} branch.'
    return f'Hello! I want to book the room "{room_name}" at {branch_name} branch.'


def transform_image_url(url: str | None) -> str | None:
    """Point a storage object URL at the image render endpoint."""
    if not url:
        return url
    return url.replace("/object/", "/render/image/") + "?" + RENDER_QUERY


def gallery_images(images: list[str] | None, image: str | None = None) -> list[str]:
    """Ordered gallery: newest upload first, then the legacy cover image.

    Duplicates are dropped keeping the first occurrence.
    """
    ordered = list(reversed(images or []))
    if image:
        ordered.append(image)

    seen = set()
    gallery = []
    for url in ordered:
        if not url or url in seen:
            continue
        seen.add(url)
        gallery.append(transform_image_url(url))
    return gallery


def attach_booking_links(tree: list[BranchNode], number: str) -> list[BranchNode]:
    """Copy of the tree with a booking link on every apartment and room."""
    linked = []
    for branch in tree:
        branch = branch.model_copy(deep=True)
        for apartment in branch.apartments:
            apartment.booking_link = make_whatsapp_link(
                apartment_message(apartment.name, branch.name), number
            )
            for room in apartment.rooms:
                room.booking_link = make_whatsapp_link(
                    room_message(room.name, branch.name, apartment.name), number
                )
        for room in branch.rooms:
            room.booking_link = make_whatsapp_link(room_message(room.name, branch.name), number)
        linked.append(branch)
    return linked


def decorate_apartment(detail: ApartmentDetail, number: str) -> ApartmentDetail:
    """Fill in gallery and booking links for an apartment page.

    The gallery is the apartment's own images followed by each room's cover.
    """
    branch_name = detail.location.branch_name
    gallery = gallery_images(detail.images, detail.image)
    for room in detail.rooms:
        rendered = transform_image_url(room.image)
        if rendered and rendered not in gallery:
            gallery.append(rendered)

    rooms = [
        room.model_copy(update={
            "booking_link": make_whatsapp_link(room_message(room.name, branch_name, detail.name), number),
        })
        for room in detail.rooms
    ]
    return detail.model_copy(update={
        "gallery": gallery,
        "rooms": rooms,
        "booking_link": make_whatsapp_link(apartment_message(detail.name, branch_name), number),
    })


def decorate_room(detail: RoomDetail, number: str) -> RoomDetail:
    location = detail.location
    message = room_detail_message(detail.name, location.branch_name, location.apartment_name)
    return detail.model_copy(update={
        "gallery": gallery_images(detail.images, detail.image),
        "booking_link": make_whatsapp_link(message, number),
    })
