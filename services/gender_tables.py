"""
性别推断使用的数据表
按文化来源组织，新增文化或词条只需修改这里
"""

CULTURES = ("western", "chinese", "japanese", "korean")
DEFAULT_CULTURE = "western"

# 名字中出现即可判定文化的文字区间
SCRIPT_RANGES = {
    "chinese": r"[\u4e00-\u9fff]",
    "japanese": r"[\u3040-\u309f\u30a0-\u30ff]",
    "korean": r"[\uac00-\ud7af\u1100-\u11ff\u3130-\u318f\ua960-\ua97f\ud7b0-\ud7ff]",
}

# 按顺序检查：先中文，再日文，再韩文
NAME_ORIGIN_PATTERNS = {
    "chinese": (
        r"^(?:Wang|Li|Zhang|Liu|Chen|Yang|Zhao|Huang|Zhou|Wu|Xu|Sun|Hu|Zhu|Gao|Lin|He|Guo|Ma"
        r"|Luo|Liang|Song|Zheng|Xie|Han|Tang|Feng|Yu|Dong|Xiao)\b",
        r"\b(?:Xiang|Tian|Jiang|Pan|Wei|Ye|Yuan|Lu|Deng|Yao|Peng|Cao|Zou|Xiong|Qian|Dai|Fu|Ding)\b",
    ),
    "japanese": (
        r"\b(?:Sato|Suzuki|Takahashi|Tanaka|Watanabe|Ito|Yamamoto|Nakamura|Kobayashi|Kato|Yoshida"
        r"|Yamada|Sasaki|Yamaguchi|Matsumoto|Inoue|Kimura|Hayashi|Shimizu|Yamazaki|Mori|Abe"
        r"|Ikeda|Hashimoto|Ishikawa)\b",
        r"\b(?:Akira|Yuki|Haruto|Soma|Yuma|Ren|Haru|Sora|Haruki|Ayumu|Riku|Taiyo|Hinata|Yamato"
        r"|Minato|Yuto|Sota|Yui|Hina|Koharu|Mei|Mio|Rin|Miyu|Kokona|Hana|Yuna|Sakura|Saki"
        r"|Ichika|Akari|Himari)\b",
        r"(?:-san|-kun|-chan|-sama|-sensei|-senpai)\b",
    ),
    "korean": (
        r"\b(?:Kim|Lee|Park|Choi|Jung|Kang|Cho|Yoon|Jang|Lim|Han|Oh|Seo|Shin|Kwon|Hwang|Ahn|Song"
        r"|Yoo|Hong|Jeon|Moon|Baek|Chung|Bae|Ryu)\b",
        r"\b(?:Min|Seung|Hyun|Sung|Young|Jin|Soo|Jun|Ji|Hye|Joon|Woo|Dong|Kyung|Jae|Eun|Yong|In"
        r"|Ho|Chang|Hee|Hyung|Cheol|Kwang|Tae|Yeon)\b",
    ),
}

# 正文中的文化线索，用于名字本身无法判定时
CONTEXT_CLUES = {
    "chinese": (
        r"Shanghai|Beijing|Guangzhou|Chinese|China|Mandarin|Cantonese|Dynasty|Emperor|Immortal"
        r"|Cultivation|Dao|Qi|Taoist|Daoist|Wuxia|Xianxia|Jianghu",
        r"Master|Shizun|Shifu|Shidi|Shixiong|Shimei|Shijie|Gongzi|Gongsun|Xiao|Lao|Da|Er|San|Si"
        r"|Wu|Liu|Qi|Ba|Jiu|Shi",
    ),
    "japanese": (
        r"Tokyo|Osaka|Kyoto|Japanese|Japan|Senpai|Sensei|Sama|Kun|Chan|San|Dono|Hakase|Sushi"
        r"|Ramen|Katana|Shinobi|Ninja|Samurai|Shogun|Daimyo|Ronin",
        r"Onee|Onii|Nee|Nii|Imouto|Otouto|Oba|Oji|Okaa|Otou|Obaa|Ojii|-san|-kun|-chan|-sama"
        r"|-dono|-sensei",
    ),
    "korean": (
        r"Seoul|Busan|Incheon|Korean|Korea|Hangul|Hanbok|Kimchi|Chaebol|Manhwa|Webtoon|Noona"
        r"|Hyung|Oppa|Unnie|Sunbae|Hoobae|Ahjussi|Ahjumma",
        r"Hyung|Noona|Oppa|Unnie|Sunbae|Hoobae|Dongsaeng|Chingu|Ahjussi|Ahjumma|Halmeoni"
        r"|Harabeoji",
    ),
}

MALE_TITLES = {
    "western": (
        "Mr", "Mr.", "Sir", "Lord", "Master", "Prince", "King", "Duke", "Count", "Baron",
        "Emperor", "Brother", "Uncle", "Father", "Dad", "Daddy", "Papa", "Grandpa",
        "Grandfather", "Boy", "Son", "Husband", "Mister", "Gentleman", "Lad", "Fellow",
    ),
    # "Wang"（王）按称谓处理，以王姓开头的名字同样会被直接判为男性
    "chinese": (
        "Dage", "Gege", "Shixiong", "Shidi", "Shizun", "Shifu", "Taoist", "Monk",
        "Young Master", "Gongzi", "Laoye", "Fujun", "Xiandi", "Huangdi", "Wang", "Shaoye",
        "Shibo", "Shishu", "Da-ge", "Er-ge", "San-ge", "Si-ge", "Wu-ge", "Liu-ge",
    ),
    "japanese": (
        "Oniisan", "Onii-san", "Onii-sama", "Onii-chan", "Otouto", "Aniki", "-kun", "Oji-san",
        "Otou-san", "Otou-sama", "Ojii-san", "Ojii-sama", "Sensei", "Senpai", "Dono", "Sama",
        "Bocchama", "Shishou", "Daimyo", "Shogun", "Tono",
    ),
    "korean": (
        "Oppa", "Hyung", "Ahjussi", "Harabeoji", "Samchon", "Appa", "Abeonim", "Seonsaengnim",
        "Sunbae", "Sajangnim", "Daejang", "Daegam",
    ),
}

FEMALE_TITLES = {
    "western": (
        "Mrs", "Mrs.", "Ms", "Ms.", "Miss", "Lady", "Princess", "Queen", "Duchess", "Countess",
        "Baroness", "Empress", "Sister", "Aunt", "Mother", "Mom", "Mommy", "Mama", "Grandma",
        "Grandmother", "Girl", "Daughter", "Wife", "Madam", "Madame", "Mistress", "Dame",
    ),
    "chinese": (
        "Jiejie", "Meimei", "Shijie", "Shimei", "Young Lady", "Young Miss", "Guniang",
        "Xiaojie", "Furen", "Taitai", "Niangniang", "Huanghou", "Gongzhu", "Wangfei", "Guifei",
        "Gupo", "Shenshen", "Da-jie", "Er-jie", "San-jie", "Si-jie", "Wu-jie", "Liu-jie",
    ),
    "japanese": (
        "Oneesan", "Onee-san", "Onee-sama", "Onee-chan", "Imouto", "Aneue", "-chan", "Oba-san",
        "Okaa-san", "Okaa-sama", "Obaa-san", "Obaa-sama", "Ojou-sama", "Hime", "Fujin",
        "Himedono",
    ),
    "korean": (
        "Unni", "Nuna", "Ahjumma", "Halmeoni", "Imo", "Eomma", "Eomeonim", "Seonsaengnim",
        "Sunbae", "Sajangnim",
    ),
}

FEMALE_NAME_ENDINGS = {
    "western": (
        "a", "ia", "ie", "y", "ey", "i", "elle", "ette", "ine", "ell", "lyn", "ina", "ah",
        "ella", "anna", "enna", "anne", "issa", "ara", "lynn", "lee",
    ),
    "chinese": (
        "xia", "qian", "ying", "yan", "yun", "juan", "xin", "min", "ning", "ping", "zhen", "hua",
    ),
    "japanese": ("ko", "mi", "ki", "na", "ka", "ri", "yo", "ho", "sa", "shi", "tsu", "chi"),
    "korean": (
        "mi", "hee", "jung", "young", "hyun", "jin", "eun", "seon", "yeon", "ji", "hye", "kyung",
    ),
}

MALE_NAME_ENDINGS = {
    "western": (
        "o", "er", "on", "en", "us", "or", "k", "d", "t", "io", "ian", "im", "am", "ik", "to",
        "ro", "hn", "il", "rt", "ng", "ez", "an",
    ),
    "chinese": (
        "hao", "wei", "jian", "feng", "ming", "tao", "cheng", "jun", "gang", "long", "peng", "kun",
    ),
    "japanese": (
        "ro", "ta", "to", "ki", "ji", "shi", "ya", "suke", "kazu", "hiro", "aki", "yuki",
    ),
    "korean": (
        "ho", "seok", "woo", "jin", "joon", "sung", "hyun", "min", "seung", "jun", "cheol", "tae",
    ),
}

MALE_PRONOUNS = r"\b(he|him|his)\b"
FEMALE_PRONOUNS = r"\b(she|her|hers)\b"

# {name} 在使用时替换为人物名
MALE_RELATIONSHIPS = (
    "{name} was her husband", "{name} was his husband", "{name}'s wife", "{name} was the father",
    "{name} was the son", "{name} was the brother", "{name} was the uncle",
    "{name} was the grandfather", "{name} was the grandson", "{name} was the king",
    "{name} was the prince", "{name} was the emperor", "{name} was the lord",
    "{name} was the duke", "{name} was the boyfriend", "{name}, the husband",
    "{name}, the father", "{name}, the brother",
)

FEMALE_RELATIONSHIPS = (
    "{name} was his wife", "{name} was her wife", "{name}'s husband", "{name} was the mother",
    "{name} was the daughter", "{name} was the sister", "{name} was the aunt",
    "{name} was the grandmother", "{name} was the granddaughter", "{name} was the queen",
    "{name} was the princess", "{name} was the empress", "{name} was the lady",
    "{name} was the duchess", "{name} was the girlfriend", "{name}, the wife",
    "{name}, the mother", "{name}, the sister",
)

MALE_DESCRIPTION_WORDS = (
    "handsome", "muscular", "beard", "moustache", "stubble", "broad-shouldered", "rugged",
    "masculine", "gentleman", "fellow", "stocky", "paternal", "strong", "manly", "chiseled",
    "goatee", "sideburns", "chest hair", "adam's apple", "baritone", "bass voice", "gruff",
    "virile", "brawny", "husky",
)

FEMALE_DESCRIPTION_WORDS = (
    "beautiful", "pretty", "gorgeous", "lovely", "pregnant", "makeup", "slender", "feminine",
    "graceful", "voluptuous", "maternal", "lady", "slim", "elegant", "petite", "curvy",
    "dress", "gown", "skirt", "blouse", "heels", "lipstick", "eyeliner", "mascara", "bosom",
    "breasts", "cleavage", "hips", "waist", "motherly", "womanly", "soft-spoken", "gentle",
    "dainty",
)

APPEARANCE_TRIGGERS = (
    "appearance", "looked", "dressed", "wore", "figure", "face", "hair", "features",
)

MALE_APPEARANCE = (
    "short hair", "crew cut", "buzz cut", "flat chest", "broad shoulders", "tall and strong",
    "muscular build", "chiseled jaw", "square jaw", "strong jaw", "adam's apple",
    "facial hair", "stubble", "large hands", "barrel chest", "deep voice", "baritone",
    "bass voice", "men's clothing", "men's fashion", "suit and tie", "tuxedo",
    "male uniform", "his physique",
)

FEMALE_APPEARANCE = (
    "long hair", "flowing hair", "braided hair", "ponytail", "bun", "curves", "slender waist",
    "hourglass figure", "feminine figure", "soft features", "delicate features", "full lips",
    "long lashes", "high cheekbones", "smooth skin", "small hands", "narrow shoulders",
    "ample bosom", "bust", "breast", "cleavage", "hips", "women's clothing",
    "women's fashion", "dress", "skirt", "blouse", "her physique", "makeup", "painted nails",
    "manicure",
)

# 精确短语（+3）
EXACT_CULTURAL_INDICATORS = {
    "western": {
        "male": (
            "{name} is a man", "{name} is male", "{name}, a man", "{name}, a male",
            "{name} was a man", "{name} was male", "{name}, the man", "man named {name}",
        ),
        "female": (
            "{name} is a woman", "{name} is female", "{name}, a woman", "{name}, a female",
            "{name} was a woman", "{name} was female", "{name}, the woman", "woman named {name}",
        ),
    },
    "chinese": {
        "male": (
            "{name} xiong", "{name} ge", "{name} gege", "{name} dage", "{name} shixiong",
            "{name} shidi", "{name} shifu", "{name} gongzi",
        ),
        "female": (
            "{name} mei", "{name} jie", "{name} jiejie", "{name} shimei", "{name} shijie",
            "{name} guniang", "{name} xiaojie", "{name} gongzhu",
        ),
    },
    "japanese": {
        "male": (
            "{name} kun", "{name}-kun", "{name} san", "{name}-san", "{name} sama",
            "{name}-sama", "{name} dono", "{name}-dono",
        ),
        "female": (
            "{name} chan", "{name}-chan", "{name} san", "{name}-san", "{name} sama",
            "{name}-sama", "{name} ojousama",
        ),
    },
    "korean": {
        "male": (
            "{name} gun", "{name}-gun", "{name} ssi", "{name}-ssi", "{name} hyung", "{name} oppa",
        ),
        "female": (
            "{name} yang", "{name}-yang", "{name} ssi", "{name}-ssi", "{name} unni", "{name} eonni",
        ),
    },
}

# 名字附近出现的文化词（+1）
NEARBY_CULTURAL_INDICATORS = {
    "western": {
        "male": (
            "man", "boy", "gentleman", "male", "lad", "groom", "bachelor", "Mr", "Mr.", "sir",
            "lord", "king", "prince", "duke", "emperor", "chairman", "master", "knight",
        ),
        "female": (
            "woman", "girl", "lady", "female", "lass", "bride", "maiden", "Miss", "Mrs", "Ms",
            "madam", "ma'am", "queen", "princess", "duchess", "empress", "chairwoman",
            "mistress", "dame",
        ),
    },
    "chinese": {
        "male": (
            "shixiong", "shidi", "gege", "dage", "tangge", "shushu", "bobo", "yeye", "shifu",
            "gongzi", "laoye", "wangye", "shizi", "langjun", "xiansheng", "xiong", "shaoye",
            "xianzhu", "fuma",
        ),
        "female": (
            "shijie", "shimei", "jiejie", "meimei", "tangjie", "tangmei", "ayi", "nainai",
            "guniang", "xiaojie", "furen", "taitai", "wangfei", "gongzhu", "niangniang",
            "guifei", "gupo", "shitai", "shiniang",
        ),
    },
    "japanese": {
        "male": (
            "otoko", "shounen", "danshi", "oniisan", "otouto", "ojisan", "ojiisan", "otousan",
            "danna", "shujin", "otto", "senpai", "kohai", "sensei", "kun", "bocchama", "dono",
            "tono", "-kun", "-dono", "-sama", "-san",
        ),
        "female": (
            "onna", "shoujo", "joshi", "oneesan", "imouto", "obasan", "obaasan", "okaasan",
            "tsuma", "okusan", "kanai", "senpai", "kohai", "sensei", "chan", "ojousama", "hime",
            "-chan", "-san", "-sama",
        ),
    },
    "korean": {
        "male": (
            "namja", "sonyeon", "abeoji", "hyeong", "oppa", "ajussi", "harabeoji", "nampyeon",
            "yeobo", "sunbae", "hubae", "seonsaengnim", "gun", "ssi",
        ),
        "female": (
            "yeoja", "sonyeo", "eomeoni", "unni", "eonni", "ajumma", "halmeoni", "anae",
            "yeobo", "sunbae", "hubae", "seonsaengnim", "yang", "ssi",
        ),
    },
}
