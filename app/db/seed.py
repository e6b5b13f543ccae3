from app.models.schemas import Category

DEFAULT_CATEGORIES = [
    Category(name="comida", direction="expense", emoji="🍕"),
    Category(name="transporte", direction="expense", emoji="🚗"),
    Category(name="entretenimiento", direction="expense", emoji="🎬"),
    Category(name="salud", direction="expense", emoji="⚕️"),
    Category(name="servicios", direction="expense", emoji="🔧"),
    Category(name="compras", direction="expense", emoji="🛍️"),
    Category(name="hogar", direction="expense", emoji="🏠"),
    Category(name="educacion", direction="expense", emoji="📚"),
    Category(name="otros", direction="expense", emoji="📦"),
    Category(name="sueldo", direction="income", emoji="💼"),
    Category(name="freelance", direction="income", emoji="🧑‍💻"),
    Category(name="inversiones", direction="income", emoji="📈"),
    Category(name="otros ingresos", direction="income", emoji="💰"),
]
