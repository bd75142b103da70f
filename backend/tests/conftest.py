import os
import tempfile

import pytest
from sqlalchemy import create_engine, StaticPool
from sqlalchemy.orm import sessionmaker

_tmp = tempfile.mkdtemp(prefix="linguaspark-test-")
os.environ["LOG_DIR"] = os.path.join(_tmp, "logs")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp, 'test.db')}"
os.environ["TESTING"] = "1"

from linguaspark.database import Base, get_db, init_db
from linguaspark.main import app
from linguaspark.services.cefr import CEFRLevel
from linguaspark.services.sections import LessonType
from linguaspark.services.shared_context import build_shared_context

CLIMATE_PARAGRAPHS = [
    "Climate change is one of the biggest problems facing the world today. Scientists agree that the "
    "planet is getting warmer because people burn coal, oil and gas for energy. When these fossil fuels "
    "burn, they release carbon dioxide into the air. This gas traps heat and slowly raises the "
    "temperature of the whole planet. Since the year 1900 the average temperature has risen by more "
    "than one degree.",
    "The effects of warming are already easy to see. Summers are hotter and longer in many countries. "
    "Some regions suffer from long periods of drought, while others have more floods after heavy rain. "
    "Farmers find it harder to grow food when the weather changes so quickly. In the mountains, old "
    "glaciers are melting, and in the Arctic the sea ice becomes thinner every year.",
    "The ocean is changing too. Warmer water takes up more space, so sea levels are rising. Cities near "
    "the coast, such as Miami, Jakarta and Venice, are spending large amounts of money to protect "
    "homes and roads from the water. The ocean also absorbs carbon, which makes the water more acidic. "
    "This harms coral reefs and the fish that depend on them for food and shelter.",
    "Many governments have promised to cut emissions. In 2015 almost every country signed the Paris "
    "Agreement, which aims to keep warming well below two degrees. To reach this goal, countries need "
    "to produce much more renewable energy from the sun, the wind and water. Solar panels and wind "
    "turbines are now cheaper than ever, and in some places they are the cheapest source of electricity.",
    "Transport is another important area. Cars, trucks and planes produce a large share of emissions. "
    "Electric cars are becoming popular in Europe and China, and many cities are building better bus "
    "and train networks. Some people choose to cycle or walk to work. Others try to fly less often and "
    "take the train for holidays instead of a short flight.",
    "Individuals can also make a difference at home. Turning off lights, using less heating and buying "
    "local food all reduce pollution. Eating less meat can help, because farming animals produces a lot "
    "of methane, another gas that warms the planet. Recycling and repairing old things instead of "
    "buying new ones also saves energy and resources.",
    "Not everyone agrees on the best way to act. Some business leaders worry that strict climate rules "
    "will cost jobs and slow the economy. Others argue that green industries create new jobs and that "
    "doing nothing will be far more expensive in the future. Poorer countries often say that rich "
    "nations caused most of the pollution, so they should pay more to solve the problem.",
    "Young people have played a big role in the debate. Millions of students around the world have "
    "joined climate strikes to ask leaders for faster action. They say that their generation will live "
    "with the results of the decisions made today. Their protests have pushed the climate to the top "
    "of the news in many countries.",
    "Technology may also help. Engineers are testing machines that remove carbon from the air and store "
    "it underground. Better batteries can keep solar and wind energy for the night. Scientists are also "
    "developing new kinds of cement and steel, two industries that produce a surprising amount of carbon.",
    "The next ten years will be very important. Experts say that emissions must fall quickly if the "
    "world wants to avoid the worst effects of climate change. This will need cooperation between "
    "governments, companies and ordinary people. The challenge is huge, but many scientists believe "
    "that the tools to solve it already exist. What is missing is the decision to use them.",
]
CLIMATE_TEXT = "\n\n".join(CLIMATE_PARAGRAPHS)


@pytest.fixture
def climate_text():
    return CLIMATE_TEXT


@pytest.fixture
def make_context():
    def _make(level=CEFRLevel.B1, lesson_type=LessonType.DISCUSSION, text=CLIMATE_TEXT, **kwargs):
        return build_shared_context(text, lesson_type, level, "Spanish", **kwargs)
    return _make


@pytest.fixture
def context(make_context):
    return make_context()


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    from fastapi.testclient import TestClient

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
