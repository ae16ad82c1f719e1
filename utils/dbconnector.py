import asyncpg

from bot_logger import logger


class AsyncDBConnector:
    def __init__(self, dsn):
        self.dsn = dsn
        self.pool = None


    async def connect(self):
        if not self.pool:
            self.pool = await asyncpg.create_pool(self.dsn, min_size=1, max_size=5)
            logger.info("Database Connection Pool Created")


    async def disconnect(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database Connection Pool Closed")


    def _require_pool(self) -> asyncpg.Pool:
        """connect() 전이거나 연결 실패로 pool이 없으면 InterfaceError"""
        if self.pool is None:
            raise asyncpg.InterfaceError("pool is not connected")
        return self.pool


    async def ensure_binding_table(self):
        """캐릭터 바인딩 테이블이 없으면 생성"""
        async with self._require_pool().acquire() as connection:
            conn: asyncpg.Connection = connection
            await conn.execute("create schema if not exists app_service")
            await conn.execute(
                """
                    create table if not exists app_service.maple_binding (
                        user_id        text not null,
                        platform       text not null,
                        region         text not null,
                        character_name text not null,
                        create_at      timestamptz not null default now(),
                        update_at      timestamptz not null default now(),
                        primary key (user_id, platform, region)
                    )
                """
            )


    async def get_binding(self, user_id: str, platform: str, region: str) -> asyncpg.Record | None:
        """
        사용자별 바인딩된 캐릭터 이름을 가져오는 함수

        Args:
            user_id  (str): 사용자 ID (discord user id)
            platform (str): 플랫폼 이름 (예: "discord")
            region   (str): 지역 (kms / tms / msea)

        Returns:
            asyncpg.Record | None: (character_name, update_at) 레코드 (없으면 None)
        """
        async with self._require_pool().acquire() as connection:
            conn: asyncpg.Connection = connection
            query = (
                """
                    select character_name, update_at
                    from app_service.maple_binding
                    where user_id = $1 and platform = $2 and region = $3
                """
            )
            return await conn.fetchrow(query, user_id, platform, region) or None


    async def upsert_binding(self, user_id: str, platform: str, region: str, character_name: str):
        """
        사용자별 캐릭터 바인딩 등록 (이미 있으면 캐릭터 이름만 갱신)

        Args:
            user_id        (str): 사용자 ID
            platform       (str): 플랫폼 이름
            region         (str): 지역
            character_name (str): 바인딩할 캐릭터 이름
        """
        async with self._require_pool().acquire() as connection:
            conn: asyncpg.Connection = connection
            query = (
                """
                    insert into app_service.maple_binding
                    (user_id, platform, region, character_name, create_at, update_at)
                    values ($1, $2, $3, $4, now(), now())
                    on conflict (user_id, platform, region)
                    do update set character_name = excluded.character_name, update_at = now()
                """
            )
            await conn.execute(query, user_id, platform, region, character_name)
