import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..errors import commit_or_raise
from ..models.models import Client, User
from ..schemas.jobs import ClientCreate, ClientResponse


router = APIRouter(prefix="/clients", tags=["clients"])


@router.post("", response_model=ClientResponse, status_code=201)
def create_client(payload: ClientCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Client name is required")
    data = payload.model_dump()
    data["name"] = name
    c = Client(user_id=user.id, **data)
    db.add(c)
    commit_or_raise(db, "create client")
    db.refresh(c)
    return c


@router.get("", response_model=List[ClientResponse])
def list_clients(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return db.query(Client).filter(Client.user_id == user.id).order_by(Client.name.asc()).all()


@router.get("/{client_id}", response_model=ClientResponse)
def get_client(client_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    c = db.query(Client).filter(Client.id == client_id, Client.user_id == user.id).first()
    if not c:
        raise HTTPException(status_code=404, detail="Client not found")
    return c
