from app.domain.user import FFLDealer, User
from app.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    model = User


class FFLDealerRepository(BaseRepository[FFLDealer]):
    model = FFLDealer
