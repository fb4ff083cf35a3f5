"""Natural-language query pipeline: classify -> execute -> answer"""
