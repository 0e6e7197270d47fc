from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Book
from ..schemas import BookCreate, BookRead
from ..utils import get_owned_or_404, require_authenticated_user

router = APIRouter(prefix="/api/books", tags=["books"])


@router.get("", response_model=list[BookRead])
async def list_books(
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    rows = await db.execute(select(Book).where(Book.user_id == user.id).order_by(Book.created_at.desc(), Book.id.desc()))
    return rows.scalars().all()


@router.post("", response_model=BookRead, status_code=201)
async def create_book(
    payload: BookCreate,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    book = Book(user_id=user.id, title=payload.title.strip(), description=payload.description or "")
    db.add(book)
    await db.commit()
    await db.refresh(book)
    return book


@router.delete("/{book_id}")
async def delete_book(
    book_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    book = get_owned_or_404(await db.get(Book, book_id), user, "Book")
    await db.delete(book)
    await db.commit()
    return {"success": True}
