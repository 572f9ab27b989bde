"""Acquisition options derived from a book's identifiers."""
from typing import List, Optional

from readshelf.models import PurchaseOption, SearchCandidate

ISBN_TYPES = ("ISBN_13", "ISBN_10")

BUY = "buy"
BORROW = "borrow"

BUY_RETAILERS = (
    ("Amazon.com", "https://www.amazon.com/dp/{isbn}"),
    ("Barnes & Noble", "https://www.barnesandnoble.com/{isbn}"),
)
BORROW_OPTION = PurchaseOption(retailer="Libby", url="https://libbyapp.com", kind=BORROW)


def find_isbn(candidate: SearchCandidate) -> Optional[str]:
    """First ISBN-13 or ISBN-10 identifier, in listing order."""
    for identifier in candidate.identifiers:
        if identifier.type in ISBN_TYPES and identifier.identifier:
            return identifier.identifier
    return None


def resolve(candidate: SearchCandidate) -> List[PurchaseOption]:
    """Buy links for each retailer when an ISBN is known, then the borrow option."""
    isbn = find_isbn(candidate)
    options = []
    if isbn:
        options.extend(
            PurchaseOption(retailer=retailer, url=template.format(isbn=isbn), kind=BUY)
            for retailer, template in BUY_RETAILERS
        )
    options.append(BORROW_OPTION)
    return options
