from enum import Enum


class ListingCategory(str, Enum):
    BOOKS = "books"
    ELECTRONICS = "electronics"
    FURNITURE = "furniture"
    FASHION = "fashion"
    OTHER = "other"
