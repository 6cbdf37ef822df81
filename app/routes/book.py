from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from app.database import get_db
from app.models.book import BookStatus
from app.models.user import UserAccount
from app.schemas.book import BookCreate, BookUpdate, BookResponse
from app.schemas.loan import LoanResponse
from app.services.auth import get_current_user, require_librarian
from app.services.catalog import CatalogManager
from app.services.loan_engine import LoanEngine

router = APIRouter(prefix="/api/books", tags=["Library Books"])

@router.get("", response_model=List[BookResponse])
async def get_books(
    search: Optional[str] = Query(None, description="Search by title, author, or ISBN"),
    status_filter: Optional[BookStatus] = Query(None, alias="status", description="Filter by status"),
    _: UserAccount = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get list of books with optional search and filter."""
    books = CatalogManager(db).list_books(status=status_filter, search=search)
    return [BookResponse(**book.to_dict()) for book in books]

@router.get("/{book_id}", response_model=BookResponse)
async def get_book(
    book_id: int,
    _: UserAccount = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get book details by ID."""
    return BookResponse(**CatalogManager(db).get_book(book_id).to_dict())

@router.get("/{book_id}/loans", response_model=List[LoanResponse])
async def get_book_loans(
    book_id: int,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Loan history of a book."""
    CatalogManager(db).get_book(book_id)
    loans = LoanEngine(db).list_loans_for_book(book_id)
    return [LoanResponse(**loan.to_dict()) for loan in loans]

@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    data: BookCreate,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    book = CatalogManager(db).create_book(data.title, data.author, data.isbn)
    return BookResponse(**book.to_dict())

@router.put("/{book_id}", response_model=BookResponse)
async def update_book(
    book_id: int,
    data: BookUpdate,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    book = CatalogManager(db).update_book(book_id, title=data.title, author=data.author, isbn=data.isbn)
    return BookResponse(**book.to_dict())

@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(
    book_id: int,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Delete a book; refused while it has open loans."""
    CatalogManager(db).delete_book(book_id)
